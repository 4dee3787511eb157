from setuptools import setup, find_packages

setup(
    name="form106-extractor",
    version="1.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.5.0",
        "numpy>=1.24.0",
        "click>=8.1.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "PyMuPDF>=1.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "form106-extract=form106_extractor.cli:main",
        ],
    },
)
