from setuptools import setup, find_packages

setup(
    name="editorlens",
    version="0.1.0",
    description="Code lens bridge between a modal text editor and LSP language servers",
    packages=find_packages(include=["editorlens", "editorlens.*"]),
    python_requires=">=3.11",
    install_requires=[
        "click>=8.0",
        "pydantic>=2.0",
        "tomli>=2.0",
        "tomli-w>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "editorlens=editorlens.cli:cli",
            "editorlens-daemon=editorlens.daemon_cli:main",
        ],
    },
)
