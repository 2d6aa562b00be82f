from setuptools import setup


def readme():
    with open("README.rst", encoding="UTF-8") as readme_file:
        return readme_file.read()


configuration = {
    "name": "umap-layout",
    "version": "0.1.0",
    "description": "Stochastic gradient descent layout of UMAP fuzzy simplicial sets",
    "long_description": readme(),
    "long_description_content_type": "text/x-rst",
    "classifiers": [
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Intended Audience :: Developers",
        "License :: OSI Approved",
        "Programming Language :: Python",
        "Topic :: Software Development",
        "Topic :: Scientific/Engineering",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX",
        "Operating System :: Unix",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    "keywords": "dimension reduction manifold graph layout umap",
    "license": "BSD",
    "packages": ["umap_layout", "umap_layout.tests"],
    "python_requires": ">=3.8",
    "install_requires": [
        "numpy >= 1.17",
        "scikit-learn >= 0.22",
        "scipy >= 1.0",
        "numba >= 0.51",
        "tqdm",
    ],
    "extras_require": {
        "test": ["pytest"],
    },
    "ext_modules": [],
    "cmdclass": {},
    "data_files": (),
    "zip_safe": False,
}

setup(**configuration)
