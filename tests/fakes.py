import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from interfaces import ICommandSink, ILabelStore, ILogger, IScheduler


class MemoryLabelStore(ILabelStore):
    def __init__(self, initial=None):
        self.sessions = {k: set(v) for k, v in (initial or {}).items()}
        self.departed = set()

    def has_session(self, session_id):
        return session_id not in self.departed

    def has_label(self, session_id, name):
        return name in self.sessions.get(session_id, ())

    def add_label(self, session_id, name):
        self.sessions.setdefault(session_id, set()).add(name)

    def remove_label(self, session_id, name):
        labels = self.sessions.get(session_id, set())
        if name in labels:
            labels.discard(name)
            return True
        return False

    def labels(self, session_id):
        return set(self.sessions.get(session_id, ()))


class RecordingSink(ICommandSink):
    def __init__(self, result=True, exc=None):
        self.result = result
        self.exc = exc
        self.commands = []
        self.targets = []

    def dispatch(self, command, session_id=None):
        self.commands.append(command)
        self.targets.append(session_id)
        if self.exc:
            raise self.exc
        return self.result


class ManualScheduler(IScheduler):
    def __init__(self):
        self.calls = []

    def schedule(self, delay_ms, callback):
        self.calls.append((delay_ms, callback))

    def run_all(self):
        calls, self.calls = self.calls, []
        for _delay, callback in calls:
            callback()
        return len(calls)


class RecordingLogger(ILogger):
    def __init__(self):
        self.access = []
        self.errors = []
        self.warnings = []
        self.console = []

    def log_access(self, message):
        self.access.append(message)

    def log_error(self, message):
        self.errors.append(message)

    def warning(self, message):
        self.warnings.append(message)

    def info(self, *a, **k):
        self.console.append(" ".join(str(x) for x in a))

    def error(self, *a, **k):
        self.console.append(" ".join(str(x) for x in a))

    def set_error_counter_callback(self, callback):
        pass


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
