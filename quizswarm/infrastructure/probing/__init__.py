from .liveness_probe import LivenessProbe, LivenessResult
from .pin_prober import PinProber

__all__ = ['LivenessProbe', 'LivenessResult', 'PinProber']
