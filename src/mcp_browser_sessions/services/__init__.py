from .console_capture import CapturedMessage, ConsoleCaptureService

__all__ = ["CapturedMessage", "ConsoleCaptureService"]
