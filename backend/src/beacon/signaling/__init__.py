from .relay import SIGNAL_KINDS, SignalingRelay, build_signal_envelope

__all__ = ["SIGNAL_KINDS", "SignalingRelay", "build_signal_envelope"]
