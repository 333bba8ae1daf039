from setuptools import setup, find_namespace_packages
import os


def read(fname):
    return open(os.path.join(os.path.dirname(__file__), fname)).read()


NAME = "HierImpute"
VERSION = "0.1"
DESCRIPTION = "Impute missing SNP genotypes from correlated neighbour markers in a precomputed marker hierarchy"
LONG_DESCRIPTION = read("README.md")

setup(
    name=NAME,
    version=VERSION,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    keywords=[
        "python",
        "impute",
        "imputation",
        "imputer",
        "SNP",
        "genotype",
        "linkage disequilibrium",
        "hierarchical clustering",
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Operating System :: OS Independent",
        "Natural Language :: English",
    ],
    license="GNU General Public License v3 (GPLv3)",
    packages=find_namespace_packages(include=["hierimpute", "hierimpute.*"]),
    python_requires=">=3.10,<4",
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "scikit-learn>=1.0",
        "joblib",
        "tqdm",
        "pyyaml",
        "snpio",
    ],
    extras_require={
        "tests": ["pytest"],
        "docs": ["sphinx<7", "sphinx-rtd-theme", "sphinx_autodoc_typehints"],
    },
    entry_points={
        "console_scripts": ["hierimpute = hierimpute.cli:main"],
    },
)
