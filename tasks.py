# type: ignore
import os

from invoke import task


@task
def venv(ctx):
    """Initialize development environment with uv."""
    print("Initializing development environment with uv...")
    ctx.run("uv venv")
    ctx.run("uv pip install -e '.[dev]'")
    print("Development environment initialization complete!")


@task
def clean(ctx):
    """
    Remove all files and directories that are not under version control.
    Use caution as this operation cannot be undone.
    """

    ctx.run("git clean -nfdx")

    response = (
        input("Are you sure you want to remove all untracked files? (y/n) [n]: ")
        .strip()
        .lower()
    )
    if response == "y":
        ctx.run("git clean -fdx")


@task
def lint(ctx):
    """
    Check style and types of the package and the tests.
    """
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx):
    """
    Run tests with coverage information.
    """
    ctx.run("pytest --cov=src --cov-report=term-missing", pty=True)


@task
def mock(ctx, port=2222):
    """Run a mock OpenWrt router on localhost for manual installs."""
    ctx.run(f"flashwrt mock --port {port}", pty=True)


@task
def build_package(ctx):
    """
    Build package using uv.
    """

    ctx.run("rm -rf dist")
    ctx.run("uv build")


@task
def release(ctx):
    """Run CI, build package, and publish to PyPI using uv."""
    token = os.getenv("PYPI_TOKEN")
    if not token:
        raise ValueError("PYPI_TOKEN environment variable is not set")

    print("Building package...")
    ctx.run("invoke build-package")

    print("Publishing to PyPI...")
    ctx.run(f"uv publish --token {token}")
