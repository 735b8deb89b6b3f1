"""Core interfaces used by the tagger components."""

from abc import ABC, abstractmethod
from typing import Callable, Set


class ILabelStore(ABC):
    @abstractmethod
    def has_session(self, session_id: str) -> bool:
        ...

    @abstractmethod
    def has_label(self, session_id: str, name: str) -> bool:
        ...

    @abstractmethod
    def add_label(self, session_id: str, name: str) -> None:
        ...

    @abstractmethod
    def remove_label(self, session_id: str, name: str) -> bool:
        ...

    @abstractmethod
    def labels(self, session_id: str) -> Set[str]:
        ...


class ICommandSink(ABC):
    @abstractmethod
    def dispatch(self, command: str, session_id=None) -> bool:
        ...


class IScheduler(ABC):
    @abstractmethod
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> None:
        ...


class ILogger(ABC):
    @abstractmethod
    def log_access(self, message: str) -> None:
        ...

    @abstractmethod
    def log_error(self, message: str) -> None:
        ...

    @abstractmethod
    def warning(self, message: str) -> None:
        ...

    @abstractmethod
    def info(self, message: str) -> None:
        ...

    @abstractmethod
    def error(self, message: str) -> None:
        ...


class IStatistics(ABC):
    @abstractmethod
    def increment_recorded(self) -> None:
        ...

    @abstractmethod
    def increment_dropped(self) -> None:
        ...

    @abstractmethod
    def increment_resolved(self, source: str) -> None:
        ...

    @abstractmethod
    def update_labels(self, added: int, removed: int) -> None:
        ...

    @abstractmethod
    def increment_commands(self, ok: bool) -> None:
        ...

    @abstractmethod
    def increment_errors(self) -> None:
        ...

    @abstractmethod
    def get_stats_display(self) -> str:
        ...
