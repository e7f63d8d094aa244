from .api.unified_server import run

if __name__ == "__main__":
    run()
