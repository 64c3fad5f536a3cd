"""
E2B sandbox runner for custom code nodes.

Each call gets a fresh sandbox: input.json and main.py are written to a
per-run directory, main.py runs with python3, and the sandbox is killed
afterwards whatever happened. Every failure surfaces as CustomCodeError so
the run aborts.
"""

import asyncio
import logging
import os
import uuid
from typing import Any, Callable, Dict, Optional

from ..custom_code import CodeResult, INPUT_FILE, build_input, build_script, parse_result
from ..exceptions import CustomCodeError

logger = logging.getLogger(__name__)

# Timeout for sandbox creation, in seconds
SANDBOX_CREATE_TIMEOUT = 120
WORK_DIR = "/tmp/autoloop"


def create_e2b_sandbox(api_key: Optional[str], template: Optional[str], timeout: int):
    """Default sandbox factory (E2B SDK v2.x)."""
    if not api_key:
        raise CustomCodeError("Custom code failed: E2B_API_KEY is not configured")

    from e2b import Sandbox

    create_kwargs: Dict[str, Any] = {"api_key": api_key, "timeout": timeout}
    if template:
        create_kwargs["template"] = template
    return Sandbox.create(**create_kwargs)


class E2BCodeRunner:
    """
    Example:
        runner = E2BCodeRunner()
        result = await runner.run("return company.rating > 4", business_data, variables)
        if result.passed: ...
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        template: Optional[str] = None,
        timeout: int = 30,
        sandbox_factory: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            api_key: E2B API key (or set E2B_API_KEY env var)
            template: E2B template ID (or set E2B_TEMPLATE_ID env var)
            timeout: Timeout for running the code, in seconds
            sandbox_factory: Called as factory(api_key=, template=, timeout=)
        """
        self.api_key = api_key or os.getenv("E2B_API_KEY")
        self.template = template or os.getenv("E2B_TEMPLATE_ID")
        self.timeout = timeout
        self.sandbox_factory = sandbox_factory or create_e2b_sandbox

    async def run(self, code: str, business_data: Dict[str, Any], variables: Dict[str, Any]) -> CodeResult:
        """
        Raises:
            CustomCodeError: Sandbox unavailable, non-zero exit or user code raised
        """
        return await asyncio.to_thread(self._run_sync, code, business_data, variables)

    def _run_sync(self, code: str, business_data: Dict[str, Any], variables: Dict[str, Any]) -> CodeResult:
        try:
            sandbox = self.sandbox_factory(
                api_key=self.api_key, template=self.template, timeout=SANDBOX_CREATE_TIMEOUT
            )
        except CustomCodeError:
            raise
        except Exception as e:
            raise CustomCodeError(f"Custom code failed: could not create sandbox: {e}")

        sandbox_id = getattr(sandbox, "sandbox_id", "unknown")
        logger.info(f"Running custom code in sandbox {sandbox_id} (timeout: {self.timeout}s)")

        work_dir = f"{WORK_DIR}/{uuid.uuid4().hex}"
        try:
            sandbox.files.write(f"{work_dir}/{INPUT_FILE}", build_input(business_data, variables))
            sandbox.files.write(f"{work_dir}/main.py", build_script(code))
            try:
                execution = sandbox.commands.run(f"python3 {work_dir}/main.py", timeout=self.timeout)
            except Exception as e:
                # Non-zero exits raise CommandExitException, which carries the output
                if getattr(e, "exit_code", None) is None:
                    raise CustomCodeError(f"Custom code failed: {type(e).__name__}: {e}")
                execution = e

            if execution.exit_code != 0:
                stderr = (execution.stderr or "").strip()
                detail = stderr.splitlines()[-1] if stderr else "no output"
                raise CustomCodeError(f"Custom code failed: exit code {execution.exit_code}: {detail}")

            return parse_result(execution.stdout or "")
        except CustomCodeError:
            raise
        except Exception as e:
            raise CustomCodeError(f"Custom code failed: sandbox error: {type(e).__name__}: {e}")
        finally:
            try:
                sandbox.kill()
            except Exception as e:
                logger.warning(f"Could not kill sandbox {sandbox_id}: {e}")
