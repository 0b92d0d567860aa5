"""
SchemaForge - Declarative Schema to Code Compiler
Install: pip install -e .
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="schemaforge",
    version="0.1.0",
    author="Diegoproggramer",
    author_email="",
    description="Compile declarative entity manifests into FastAPI + SQLAlchemy projects",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/Diegoproggramer/schemaforge",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
        "Framework :: Pydantic :: 2",
    ],
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "faker>=18.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.20.0",
        "sqlalchemy>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "httpx>=0.24.0",
            "black>=23.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "schemaforge=schemaforge.cli:cli_main",
        ],
    },
    keywords="schema, code-generator, fastapi, sqlalchemy, pydantic, crud, openapi",
    project_urls={
        "Bug Reports": "https://github.com/Diegoproggramer/schemaforge/issues",
        "Source": "https://github.com/Diegoproggramer/schemaforge",
    },
)
