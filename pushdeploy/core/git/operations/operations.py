"""Git Operations - Version control shell-outs for deployment targets

Responsibilities:
- Query the current branch of a target working copy
- Hard-reset local modifications and pull the latest source
- Run git off the event loop with an optional timeout
"""

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class GitOperations:
    """Git commands against one working copy"""

    def __init__(self, repo_path: Union[str, Path], timeout: Optional[float] = None):
        """Initialize with repository path

        Args:
            repo_path: Working copy directory
            timeout: Per-command timeout in seconds (None = unbounded)
        """
        self.repo_path = Path(repo_path)
        self.timeout = timeout

    def _run_git_command(self, args: list[str]) -> dict:
        """Run a git command and return result"""
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )

            return {
                "success": True,
                "stdout": result.stdout.strip(),
                "stderr": result.stderr.strip(),
                "returncode": result.returncode,
            }

        except subprocess.CalledProcessError as e:
            return {
                "success": False,
                "stdout": e.stdout.strip() if e.stdout else "",
                "stderr": e.stderr.strip() if e.stderr else "",
                "returncode": e.returncode,
                "error": (e.stderr or "").strip() or str(e),
            }
        except subprocess.TimeoutExpired as e:
            return {"success": False, "returncode": None, "error": f"git {args[0]} timed out after {e.timeout}s"}
        except OSError as e:
            # Missing directory or git binary
            return {"success": False, "returncode": None, "error": str(e)}

    async def run(self, args: list[str]) -> dict:
        """Run a git command in a worker thread"""
        logger.debug(f"ENTRY GitOperations.run: git {' '.join(args)} in {self.repo_path}")
        result = await asyncio.to_thread(self._run_git_command, args)
        logger.debug(f"EXIT GitOperations.run: success={result['success']}")
        return result

    async def current_branch(self) -> Optional[str]:
        """Get the checked out branch, or None when it cannot be determined"""
        result = await self.run(["rev-parse", "--abbrev-ref", "HEAD"])
        if not result["success"]:
            logger.debug(f"Could not read branch of {self.repo_path}: {result.get('error')}")
            return None

        branch = "".join(result["stdout"].split())
        return branch or None

    async def reset_and_pull(self) -> dict:
        """Discard local modifications, then fetch and merge the latest source"""
        reset = await self.run(["reset", "--hard", "HEAD"])
        if not reset["success"]:
            return reset

        pull = await self.run(["pull"])
        if pull.get("stdout"):
            logger.debug(pull["stdout"])
        return pull
