from . import evals, jobs

__all__ = ["evals", "jobs"]
