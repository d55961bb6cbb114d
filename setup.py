from setuptools import setup, find_namespace_packages

setup(
    name="dcorch",
    version="0.1.0",
    description="Docker Compose stack orchestration for integration tests",
    packages=find_namespace_packages(where="src", include=["dcorch", "dcorch.*"]),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "click>=8.0",
        "tenacity>=8.3",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dcorch=dcorch.CLI.main:main",
        ],
    },
)
