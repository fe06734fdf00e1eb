from setuptools import setup, find_packages

setup(
    name="simcheck",
    version="0.1.0",
    description="simcheck - milestone checks for bots running on a simulation server",
    packages=find_packages(include=["simcheck", "simcheck.*"]),
    include_package_data=True,
    install_requires=[
        # Core data modeling and validation
        "pydantic>=2.0.0",
        
        # Async HTTP client (server CLI, event feed, results collector)
        "httpx>=0.25.0",
        
        # Environment variables
        "python-dotenv>=1.0.0",
        
        # CLI and rich output
        "typer>=0.9.0",
        "rich>=13.0.0",
        
        # YAML scenario files
        "pyyaml>=6.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "simcheck = simcheck.app.cli:main",
        ],
    },
    python_requires=">=3.11",
    package_dir={"": "."},
)
