from setuptools import setup, find_packages
import re

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("stress_tool/__init__.py", "r", encoding="utf-8") as f:
    version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", f.read(), re.M)
    if version_match:
        version = version_match.group(1)
    else:
        raise RuntimeError("Unable to find version string in stress_tool/__init__.py")

setup(
    name="stress-tool",
    version=version,
    description="Interactive concurrent load generator for databases and other backends",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["stress_tool", "stress_tool.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing :: Traffic Generation",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "rich>=13.0.0",  # Console output
        "python-dotenv>=0.19.0",  # For environment variables
        "psutil>=5.9.0",  # Open connection counting
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "black>=22.0.0",
            "isort>=5.10.0",
            "mypy>=1.0.0",
        ],
        "postgres": ["psycopg2-binary>=2.9.0"],
        "http": ["httpx>=0.27.0"],
        "all": ["psycopg2-binary>=2.9.0", "httpx>=0.27.0"],
    },
    entry_points={
        "console_scripts": [
            "stress-tool=stress_tool.cli:main",
        ],
    },
)
