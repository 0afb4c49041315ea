from srs.utils.scheduler import ReviewGrade, SchedulingState, compute_next_state, normalize_state

__all__ = ["ReviewGrade", "SchedulingState", "compute_next_state", "normalize_state"]

__version__ = "0.1.0"
