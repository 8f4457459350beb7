"""Build metadata reported by /health and /status.

APP_VERSION and GIT_COMMIT are set by the deploy pipeline. On Render the
commit comes from RENDER_GIT_COMMIT instead. Local runs fall back to the
checkout's short SHA, or "dev" outside a git checkout.
"""

import os
import subprocess

_SHORT_SHA_LEN = 7


def _git_short_sha() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (FileNotFoundError, subprocess.CalledProcessError):
        return "dev"


def _commit() -> str:
    if commit := os.environ.get("GIT_COMMIT"):
        return commit
    if render_commit := os.environ.get("RENDER_GIT_COMMIT"):
        return render_commit[:_SHORT_SHA_LEN]
    return _git_short_sha()


APP_VERSION: str = os.environ.get("APP_VERSION", "dev")
GIT_COMMIT: str = _commit()
