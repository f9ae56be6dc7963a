from newsedge.telemetry.telemetry import TelemetryStore, build_signal_id, build_telemetry_log

__all__ = ["TelemetryStore", "build_signal_id", "build_telemetry_log"]
