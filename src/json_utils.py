"""JSON helpers backed by orjson."""

import orjson


def json_loads(b):
    return orjson.loads(b)


def json_dumps(obj) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_line(obj) -> bytes:
    """Encode one frame of the newline-delimited event stream."""
    return orjson.dumps(obj, option=orjson.OPT_APPEND_NEWLINE)


def load_json_file(path: str):
    with open(path, "rb") as f:
        return orjson.loads(f.read())
