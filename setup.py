from setuptools import setup, find_packages


setup(
    name="zpack",
    version="0.1",
    packages=find_packages(include=["zpack", "zpack.*"]),
    description="Sector-aligned zlib archives with a fixed-capacity file table and lazy per-entry reads.",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "zpack=zpack.cli:main",
        ]
    },
)
