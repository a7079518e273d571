from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="parallel-histeq",
    version="1.0.0",
    author="Parallel Histogram Equalisation Team",
    description="Data-parallel histogram equalisation for 8/16-bit grey, RGB and HSL images",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Graphics :: Graphics Conversion",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "opencl": ["pyopencl"],
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "histeq=histeq.cli.equalise:main",
        ],
    },
    include_package_data=True,
    package_data={
        "histeq": ["kernels/*.cl"],
    },
)
