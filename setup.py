from setuptools import setup, find_packages

setup(
    name="stackrite",
    author="Sanic Community",
    author_email="tronic@noreply.users.github.com",
    description="Readable, colorized call-stack rendering for text, terminals and HTML",
    long_description=open("README.md", encoding="UTF-8").read(),
    long_description_content_type="text/markdown",
    url="https://github.com/sanic-org/stackrite",
    use_scm_version={"fallback_version": "0.1.0"},
    setup_requires = ["setuptools_scm"],
    packages=find_packages(include=["stackrite", "stackrite.*"]),
    python_requires=">=3.9",
    classifiers = [
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "License :: Public Domain",
        "Operating System :: OS Independent",
    ],
    install_requires = ["html5tagger>=2.0.0"],
    extras_require = {"test": ["pytest", "beautifulsoup4"]},
    include_package_data = True,
)
