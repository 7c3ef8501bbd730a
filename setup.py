"""Setup script for pii_relay package."""

from setuptools import setup, find_packages

setup(
    name="pii-relay",
    version="0.1.0",
    description="Tool-calling LLM agents with reversible PII tokenization",
    packages=find_packages(include=["pii_relay", "pii_relay.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "httpx>=0.25.0",
        "openai>=1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "pii-relay=pii_relay.main:main",
        ],
    },
    package_data={
        "pii_relay": ["config/default_config.yaml"],
    },
)
