"""
Build script for parakeet-tdt.

Pure Python package, no native extensions.
Install for development:
    pip install -e ".[test]"
"""

from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).parent

if __name__ == "__main__":
    setup(
        name="parakeet-tdt",
        version="0.1.0",
        description="Streaming and batch speech-to-text with Parakeet TDT models in PyTorch",
        long_description=(HERE / "DESIGN.md").read_text(encoding="utf-8") if (HERE / "DESIGN.md").exists() else "",
        long_description_content_type="text/markdown",
        python_requires=">=3.10",
        packages=find_packages(include=["parakeet_tdt", "parakeet_tdt.*"]),
        install_requires=[
            "torch>=2.1",
            "torchaudio>=2.1",
            "numpy>=1.24",
            "safetensors>=0.4",
            "huggingface_hub>=0.20",
            "click>=8.1",
        ],
        extras_require={
            "test": ["pytest>=7.4"],
        },
        entry_points={
            "console_scripts": [
                "parakeet-tdt=parakeet_tdt.cli:main",
            ],
        },
    )
