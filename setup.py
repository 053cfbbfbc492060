from setuptools import setup, find_packages

setup(
    name="unitsync",
    version="1.0.0",
    packages=find_packages(include=["unitsync", "unitsync.*"]),
    install_requires=[
        "python-dotenv>=1.0.0",
        "click>=8.1.0",
        "pydantic>=2.0.0",
        "aiofiles>=23.0.0",
        "beautifulsoup4>=4.12.0",
        "playwright>=1.40.0",
        "openpyxl>=3.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "hypothesis>=6.90.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "unitsync=unitsync.cli.main:main",
        ]
    },
    description="Incremental scraper that keeps a local corpus of training.gov.au units of competency in sync.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    license="MIT",
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Internet :: WWW/HTTP :: Indexing/Search",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
