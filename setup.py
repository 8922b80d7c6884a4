"""
Setup script for happiness_analysis package
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file for long description
readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding='utf-8')
else:
    long_description = "Spatial autocorrelation of happiness across countries and U.S. states"

setup(
    name="happiness_analysis",
    version="0.1.0",
    description="Spatial autocorrelation analysis of happiness and its geographic correlates",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Happiness Analysis Project",
    packages=find_packages(include=["happiness_analysis", "happiness_analysis.*"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.20",
        "pandas>=1.3",
        "geopandas>=0.12",
        "scipy>=1.7",
        "shapely>=2.0",
        "statsmodels>=0.13",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: GIS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    keywords="happiness spatial-autocorrelation morans-i getis-ord GIS",
)
