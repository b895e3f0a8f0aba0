"""Invoke tasks for the push hook deployment server

Responsibilities:
- Development server management (run, test)
- Health check against a running server
- Sending a sample push event for manual end-to-end checks
"""

import json
from pathlib import Path

from invoke import task

# Project paths
PROJECT_ROOT = Path(__file__).parent
TESTS_DIR = PROJECT_ROOT / "tests"


@task
def run(ctx, config=None, port=None, targets_root=None):
    """Run the deployment server in the foreground"""
    args = []
    if config:
        args.append(f"--config {config}")
    if port:
        args.append(f"--port {port}")
    if targets_root:
        args.append(f"--targets-root {targets_root}")

    print("🚀 Starting pushdeploy server...")
    ctx.run(f"python pushdeploy_server.py {' '.join(args)}", pty=True)


@task
def test(ctx, unit=True, verbose=False, keyword=None):
    """Run the test suite"""
    cmd = ["pytest", str(TESTS_DIR / "unit") if unit else str(TESTS_DIR)]
    if verbose:
        cmd.append("-v")
    if keyword:
        cmd.append(f"-k '{keyword}'")

    ctx.run(" ".join(cmd), pty=True)


@task
def health(ctx, endpoint="http://localhost:8282"):
    """Query the server health endpoint"""
    print(f"🔍 Checking deployment server at {endpoint}")
    try:
        ctx.run(f"curl -s {endpoint}/health | python3 -m json.tool", pty=True)
    except Exception:
        print("❌ Deployment server not responding")


@task
def deploy_hook(ctx, repository, branch="main", endpoint="http://localhost:8282", hook_path="/hooks/push"):
    """Send a sample GitHub push event (the source address must be allow-listed)"""
    payload = json.dumps({"ref": f"refs/heads/{branch}", "repository": {"name": repository}})

    print(f"📬 Sending push event for {repository}@{branch} to {endpoint}{hook_path}")
    cmd = f"curl -s -X POST -H 'Content-Type: application/json' -d '{payload}' {endpoint}{hook_path}"
    ctx.run(cmd)
    print("✅ Push event sent (the hook always answers with an empty body)")
