from setuptools import setup, find_packages

from src import __version__

setup(
    name="social-publisher",
    version=__version__,
    description="Scheduled publishing to Facebook, Instagram, Twitter and TikTok with retries and token refresh",
    author="Your Name",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "click>=8.1.7",
        "cryptography>=41.0.0",
        "fastapi>=0.109.0",
        "httpx>=0.25.2",
        "psycopg2-binary>=2.9.9",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",
        "rich>=13.7.0",
        "sqlalchemy>=2.0.23",
        "uvicorn>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "publisher-cli=cli.main:cli",
        ],
    },
    python_requires=">=3.10",
)
