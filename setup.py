"""Setup script for Rankdesk."""

from setuptools import setup, find_packages

setup(
    name="rankdesk",
    version="0.1.0",
    description="Backlink reconciliation and keyword ranking analytics for SEO teams",
    author="Rankdesk",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "sqlalchemy>=2.0.0",
        "click>=8.1.0",
        "rich>=13.6.0",
        "requests>=2.31.0",
        "tenacity>=8.2.0",
        "loguru>=0.7.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dateutil>=2.8.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "rankdesk=rankdesk.cli:main",
        ],
    },
    python_requires=">=3.10",
)
