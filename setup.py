"""
python -m build
twine upload dist/*
"""

from setuptools import setup, find_packages


def sarest_setup():
    with open("requirements.txt", "rt") as fp:
        install_requires = fp.read().strip().split("\n")

    version = "0.3.0"

    setup(
        name="sarest",
        packages=find_packages(exclude=["tests", "tests.*"]),
        version=version,
        license="MIT",
        description="sarest : JSON:API request handling for SQLAlchemy models",
        long_description=open("README.rst").read(),
        long_description_content_type="text/x-rst",
        keywords=["SqlAlchemy", "REST", "JsonAPI", "pydantic"],
        python_requires=">=3.8, <4",
        install_requires=install_requires,
        classifiers=[
            "Development Status :: 3 - Alpha",
            "License :: OSI Approved :: MIT License",
            "Intended Audience :: Developers",
            "Topic :: Software Development :: Libraries",
            "Environment :: Web Environment",
            "Programming Language :: Python :: 3.12",
            "Programming Language :: Python :: 3.11",
            "Programming Language :: Python :: 3.10",
            "Programming Language :: Python :: 3.9",
            "Programming Language :: Python :: 3.8",
        ],
        extras_require={"test": ["pytest>=7", "aiosqlite>=0.19"]},
    )


sarest_setup()  # pragma: no cover
