from setuptools import find_packages, setup

version = None
with open("metaverse_sdk_automation/__init__.py", encoding="utf-8") as f:
    for line in f:
        if line.startswith("__version__"):
            version = line.strip().split()[-1][1:-1]
            break
assert version is not None, "Could not find version string"

with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="metaverse-sdk-automation",
    version=version,
    description="Streaming upload and packaging automation for Metaverse SDK plugins",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",
        "tqdm>=4.66.0",
        "pydantic>=2.0",
        "typer>=0.9.0",
        "filetype>=1.2.0",
        "packaging>=23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.2.5",
            "pytest-cov>=2.12.1",
            "requests-mock>=1.9.3",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "metaverse-sdk-automation = metaverse_sdk_automation.cli.app:main",
        ]
    },
    keywords="unreal plugin upload multipart streaming",
)
