"""
Custom code node support.

User code is the *body* of a function with three parameters:

    business   the business snapshot (attribute or key access)
    company    alias of business
    variables  the run's variable bag (a plain dict, writable)

so a node can contain `return company.rating > 4` or several statements
ending in a return. A truthy return continues the branch, a falsy one
(including no return at all) stops it.

User code never runs in the worker process. Here it is only compiled, to
report syntax errors when a workflow is parsed; execution happens in an E2B
sandbox (see integrations.sandbox) with this flow:

1. The business snapshot and variables are uploaded as input.json
2. build_script() wraps the user body into a standalone main.py
3. main.py prints one RESULT_MARKER line with the verdict and the variables
4. parse_result() turns that line back into a CodeResult
"""

import json
import textwrap
from dataclasses import dataclass, field
from typing import Any, Dict

from .exceptions import CustomCodeError

FUNCTION_NAME = "__custom_node__"
RESULT_MARKER = "__AUTOLOOP_RESULT__"
INPUT_FILE = "input.json"

_SCRIPT_TEMPLATE = '''import json
import os


class RecordView(dict):
    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)
        return self.get(name)


{function}

with open(os.path.join(os.path.dirname(os.path.abspath(__file__)), "{input_file}")) as f:
    payload = json.load(f)

record = RecordView(payload["business"])
variables = payload["variables"]
try:
    output = {{"passed": bool({function_name}(record, record, variables)), "variables": variables}}
except Exception as e:
    output = {{"error": type(e).__name__ + ": " + str(e)}}
print("{marker} " + json.dumps(output, default=str))
'''


@dataclass
class CodeResult:
    passed: bool
    variables: Dict[str, Any] = field(default_factory=dict)


def wrap_source(code: str) -> str:
    body = textwrap.indent(textwrap.dedent(code).strip("\n"), "    ")
    return f"def {FUNCTION_NAME}(business, company, variables):\n{body}\n"


def validate_custom_code(code: str) -> None:
    """
    Raises:
        SyntaxError: If the code does not parse
    """
    compile(wrap_source(code), "<custom-node>", "exec")


def build_script(code: str) -> str:
    """Standalone program that runs the user body against input.json."""
    return _SCRIPT_TEMPLATE.format(
        function=wrap_source(code),
        function_name=FUNCTION_NAME,
        input_file=INPUT_FILE,
        marker=RESULT_MARKER,
    )


def build_input(business_data: Dict[str, Any], variables: Dict[str, Any]) -> str:
    return json.dumps({"business": business_data, "variables": variables}, default=str)


def parse_result(stdout: str) -> CodeResult:
    """
    Read the last result line; user prints before it are ignored.

    Raises:
        CustomCodeError: If there is no result line or the user code raised
    """
    lines = [line for line in stdout.splitlines() if line.startswith(RESULT_MARKER)]
    if not lines:
        raise CustomCodeError("Custom code failed: no result returned from sandbox")

    try:
        output = json.loads(lines[-1][len(RESULT_MARKER):])
    except ValueError as e:
        raise CustomCodeError(f"Custom code failed: unreadable sandbox result: {e}")

    if "error" in output:
        raise CustomCodeError(f"Custom code failed: {output['error']}")
    return CodeResult(passed=bool(output.get("passed")), variables=output.get("variables") or {})
