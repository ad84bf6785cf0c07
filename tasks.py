# tasks.py: Task definitions using Invoke (install with `pip install invoke`)
from invoke import task


@task
def plants(c, interfaces="statsmodels bambi pymc stan", out_dir="outputs", quick=False):
    """Fit the nested plant-growth data through each interface."""
    quick_flag = "--quick" if quick else ""
    c.run(f"python3 -m multilevel.walkthrough plants --interfaces {interfaces} "
          f"--out-dir {out_dir} {quick_flag}")


@task
def admissions(c, interfaces="statsmodels bambi pymc stan", out_dir="outputs", quick=False):
    """Fit the binomial admissions data through each interface."""
    quick_flag = "--quick" if quick else ""
    c.run(f"python3 -m multilevel.walkthrough admissions --interfaces {interfaces} "
          f"--out-dir {out_dir} {quick_flag}")


@task
def install_cmdstan(c):
    """Download and build CmdStan (needed by the Stan interface)."""
    c.run("python3 -c \"import cmdstanpy; cmdstanpy.install_cmdstan()\"")


@task
def lint(c):
    """Run code linting."""
    c.run("flake8 multilevel/ tests/")


@task
def test(c, slow=False):
    """Run tests (sampling tests only with --slow)."""
    c.run("pytest" if slow else "pytest -m 'not slow'")


@task
def clean(c):
    """Clean up temporary files."""
    c.run("find . -type d -name __pycache__ -exec rm -rf {} +")
    c.run("find . -type f -name '*.pyc' -delete")
    c.run("rm -rf .pytest_cache")
    c.run("rm -rf outputs")
    c.run("rm -rf dist")
    c.run("rm -rf build")
