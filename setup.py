"""
Setup script for installing the package.
"""
from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description.
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

# Load runtime requirements, skipping comments and blank lines.
requirements = [
    line.strip()
    for line in (this_directory / "requirements.txt").read_text().splitlines()
    if line.strip() and not line.strip().startswith("#")
]

setup(
    name="evidence-transcriber",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Time-aligned, speaker-attributed transcripts of audio and video evidence",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/evidence-transcriber",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Legal Industry",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "evidence-transcriber=evidence_transcriber.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
