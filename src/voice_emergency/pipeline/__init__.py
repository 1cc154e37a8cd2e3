"""Session ingress, per-session workers and alert dispatch."""

from .alerts import AlertDispatcher
from .ingress import SessionIngress
from .ingress import SessionWorker

__all__ = ["AlertDispatcher", "SessionIngress", "SessionWorker"]
