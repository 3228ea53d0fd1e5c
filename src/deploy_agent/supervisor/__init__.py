"""Process supervision for the deployed application."""

from .log_broadcaster import LogBroadcaster, LogSubscription
from .models import ManagedProcess, ProcessState
from .process_supervisor import ProcessSupervisor

__all__ = ["LogBroadcaster", "LogSubscription", "ManagedProcess", "ProcessState", "ProcessSupervisor"]
