from claimletter.ops.readiness import ProbeResult, ReadinessAggregator, ReadinessReport, run_probe

__all__ = [
    "ProbeResult",
    "ReadinessAggregator",
    "ReadinessReport",
    "run_probe",
]
