"""
Bootstrap program for python runtimes.

Usage: python worker.py <entry file> <handler name>

Reads one {"message": "event", ...} line from stdin, calls the handler and
prints the result between the message sentinels. Runs standalone in the child
interpreter, so it only uses the standard library.
"""

import importlib.util
import json
import os
import sys
import time
import uuid

START_SENTINEL = "__FAKE_LAMBDA_START__"
END_SENTINEL = "__FAKE_LAMBDA_END__"


class LambdaContext:
    """The subset of the Lambda context object handlers commonly touch."""

    def __init__(self, request_id, function_name):
        self.aws_request_id = request_id or str(uuid.uuid4())
        self.function_name = function_name
        self.function_version = "$LATEST"
        self.memory_limit_in_mb = int(os.environ.get("AWS_LAMBDA_FUNCTION_MEMORY_SIZE", "1536"))
        self.log_group_name = f"/aws/lambda/{function_name}"
        self.log_stream_name = time.strftime("%Y/%m/%d") + "/[$LATEST]" + uuid.uuid4().hex
        self._deadline = time.time() + float(os.environ.get("AWS_LAMBDA_FUNCTION_TIMEOUT", "300"))

    def get_remaining_time_in_millis(self):
        return max(0, int((self._deadline - time.time()) * 1000))


def load_handler(entry, handler_name):
    entry = os.path.abspath(entry)
    module_dir = os.path.dirname(entry)
    if module_dir not in sys.path:
        sys.path.insert(0, module_dir)

    module_name = os.path.splitext(os.path.basename(entry))[0]
    spec = importlib.util.spec_from_file_location(module_name, entry)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return getattr(module, handler_name)


def peak_memory_bytes():
    try:
        import resource
    except ImportError:
        return 0
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports KiB, macOS reports bytes.
    return usage if sys.platform == "darwin" else usage * 1024


def main(argv):
    entry, handler_name = argv[1], argv[2]
    message = json.loads(sys.stdin.readline())
    if message.get("message") != "event":
        raise ValueError(f"unexpected message from host: {message.get('message')!r}")

    handler = load_handler(entry, handler_name)
    function_name = os.path.splitext(os.path.basename(entry))[0]
    result = handler(message.get("eventObject"), LambdaContext(message.get("id"), function_name))

    payload = {
        "message": "result",
        "id": message.get("id"),
        "result": result,
        "memory": peak_memory_bytes(),
    }
    sys.stdout.write(START_SENTINEL + json.dumps(payload) + END_SENTINEL + "\n")
    sys.stdout.flush()


if __name__ == "__main__":
    main(sys.argv)
