"""Setup script for weeksync, an offline-first week planner core."""

import os
from pathlib import Path

from setuptools import find_packages, setup
from setuptools.command.develop import develop
from setuptools.command.install import install


def post_install_setup():
    """Create the configuration and cache directories and show setup guidance."""
    try:
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        xdg_cache = os.environ.get("XDG_CACHE_HOME")
        config_dir = (Path(xdg_config) if xdg_config else Path.home() / ".config") / "weeksync"
        cache_dir = (Path(xdg_cache) if xdg_cache else Path.home() / ".cache") / "weeksync"

        config_dir.mkdir(parents=True, exist_ok=True)
        cache_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

        config_file = config_dir / "config.yaml"
        if not config_file.exists():
            print("\n" + "=" * 60)
            print("weeksync installation complete")
            print("=" * 60)
            print(f"Configuration directory: {config_dir}")
            print(f"Cache directory: {cache_dir}")
            print("\nNext steps:")
            print("1. Create config.yaml in the configuration directory")
            print("2. Map task list names to ids under 'lists:'")
            print("3. See README.md for every supported setting")
            print("=" * 60)

    except OSError as e:
        print(f"Warning: Post-install setup failed: {e}")
        print("You may need to create configuration directories manually.")


class PostInstallCommand(install):
    """Custom install command with post-install setup."""

    def run(self):
        install.run(self)
        post_install_setup()


class PostDevelopCommand(develop):
    """Custom develop command with post-install setup."""

    def run(self):
        develop.run(self)
        post_install_setup()


# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements; pytest tooling goes to the dev extra
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    content = requirements_file.read_text().strip()
    lines = content.split("\n")

    for line in lines:
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        if "pytest" in line or "testing" in line.lower():
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="weeksync",
    version="0.1.0",
    description="Offline-first calendar and task week view with incremental sync and recurrence rules",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="weeksync developers",
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements,
        "test": dev_requirements,
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar tasks week-view rrule recurrence sync cache async",
    cmdclass={
        "install": PostInstallCommand,
        "develop": PostDevelopCommand,
    },
    zip_safe=False,
    platforms=["linux", "macos"],
)
