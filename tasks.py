# type: ignore
import os

from invoke import task


@task
def venv(ctx):
    """Create the development environment with uv."""
    ctx.run("uv sync --all-extras")


@task
def clean(ctx):
    """
    Remove all files and directories that are not under version control.
    Asks before deleting anything.
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
    """Check style and types of the package and its tests."""
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx):
    """Run tests with coverage of the feederlink package."""
    ctx.run("pytest --cov=feederlink --cov-report=term-missing", pty=True)


@task
def mock(ctx, port=8080):
    """Serve an emulated feeder on localhost for manual testing."""
    ctx.run(f"feederlink mock --port {port}", pty=True)


@task
def build_package(ctx):
    """Build sdist and wheel with uv."""
    ctx.run("rm -rf dist")
    ctx.run("uv build")


@task
def release(ctx):
    """Build and publish to PyPI; needs PYPI_TOKEN."""
    token = os.getenv("PYPI_TOKEN")
    if not token:
        raise ValueError("PYPI_TOKEN environment variable is not set")

    ctx.run("invoke build-package")
    ctx.run(f"uv publish --token {token}")
