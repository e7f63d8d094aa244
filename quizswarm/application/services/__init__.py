from .quiz_bot_service import QuizBotService

__all__ = ['QuizBotService']
