from srs.workflow.review_session import GradeResult, ReviewSession
from srs.workflow.review_stats import ReviewSummary, build_review_summary

__all__ = ["GradeResult", "ReviewSession", "ReviewSummary", "build_review_summary"]
