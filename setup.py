"""
Setup script for the Voice Emergency Pipeline.
"""

from setuptools import find_packages
from setuptools import setup

setup(
    name="voice-emergency-pipeline",
    version="1.0.0",
    description="Real-time multimodal emergency detection and voice session pipeline",
    author="Voice Safety Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "pydantic>=2.8.0",
        "pyyaml>=6.0.1",
        "python-dotenv>=1.0.0",
        "numpy>=1.26.0",
        "scipy>=1.11.0",
        "aiofiles>=23.2.1",
        "asyncio-throttle>=1.0.2",
        "tenacity>=8.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "voice-emergency=voice_emergency.run:main",
        ],
    },
)
