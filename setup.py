# setup.py
from setuptools import setup, find_packages

setup(
    name="rangekit",
    version="0.1.0",
    description="Split large S3 objects into record-aligned byte ranges and publish them to Kafka.",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.9",
    install_requires=[
        "boto3>=1.28",
        "botocore>=1.31",
        "kafka-python>=2.0.3",
        "tqdm>=4.64",
        "setproctitle>=1.3",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "rangekit=rangekit.cli:main",
        ],
    },
)
