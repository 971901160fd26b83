from setuptools import setup, find_packages

setup(
    name="shielded-pool-client",
    version="0.1.0",
    description="Shielded pool client: Poseidon2 commitments, Merkle accumulator and proof-backed deposits and withdrawals",
    author="Shielded Pool Team",
    author_email="team@shielded-pool.dev",
    url="https://github.com/shielded-pool/shielded-pool-client",
    license="MIT",
    python_requires=">=3.9",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "cryptography>=40.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy>=2.0.0",
        "pytest>=7.0.0",
        "pytest-cov>=4.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "hypothesis>=6.0.0",
        ],
        "dev": [
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
            "isort>=5.12.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
