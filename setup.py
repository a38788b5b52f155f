"""
VidTalk setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .

    # Run from source:
    python3 main.py process https://example.com/uploads/talk.mp4
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "vidtalk"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Video transcription pipeline with chunked Whisper inference",
    packages=find_namespace_packages(include=["vidtalk", "vidtalk.*"]),
    install_requires=[
        "requests>=2.28.0",
    ],
    python_requires=">=3.10",
)
