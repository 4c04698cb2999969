from setuptools import setup, find_packages

# Read version from __version__.py without importing the package
version_file = {}
with open("slam_setup/__version__.py") as fp:
    exec(fp.read(), version_file)
__version__ = version_file['__version__']

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

python_requires = ">=3.9"

install_requires = [
    "requests",            # Checkpoint downloads
    "tqdm",                # Download progress bars
    "pydantic>=2.0,<3.0",  # Settings model
    "PyYAML>=6.0",         # Settings file
]

extras_require = {
    "test": [
        "pytest",
    ],
}
extras_require["dev"] = extras_require["test"]

classifiers = [
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3.9",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Operating System :: POSIX :: Linux",
]

setup(
    name="slam-setup",
    version=__version__,
    description="Environment provisioning for MASt3R-SLAM",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=classifiers,
    python_requires=python_requires,
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "slam-setup=slam_setup.main:main",
        ],
    },
    zip_safe=False,
)
