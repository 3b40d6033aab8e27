"""Setup script for the log-hound CLI"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="log-hound",
    version="0.1.0",
    author="Log Hound",
    author_email="admin@localhost.local",
    description="Search and tail CloudWatch Logs Insights and Kamal container logs from your terminal",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: System :: Logging",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "click>=8.0",
        "pyyaml>=6.0",
        "tabulate>=0.9",
        "colorama>=0.4",
        "python-dateutil>=2.8",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "paramiko>=3.0",
        "boto3>=1.28",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "log-hound=log_hound.cli:cli",
        ],
    },
)
