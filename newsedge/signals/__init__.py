from newsedge.signals.service import SignalService

__all__ = ["SignalService"]
