#!/usr/bin/env python
import codecs
import os.path
import re

from setuptools import setup, find_packages

here = os.path.abspath(os.path.dirname(__file__))


def read(*parts):
    return codecs.open(os.path.join(here, *parts), 'r').read()


def find_version(*file_paths):
    version_file = read(*file_paths)
    version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]",
                              version_file, re.M)
    if version_match:
        return version_match.group(1)
    raise RuntimeError("Unable to find version string.")


install_requires = [r for r in read('requirements.txt').splitlines() if r.strip() and not r.startswith('#')]
tests_require = [r for r in read('requirements-test.txt').splitlines() if r.strip() and not r.startswith('#')]

setup(
    name='scrollcapture.io',
    version=find_version("scrollcaptureio", "__init__.py"),
    description='Scrolling screenshot capture, full page, visible area and selections of pages and scroll containers stitched into one image.',
    long_description=read('README.md'),
    long_description_content_type='text/markdown',
    keywords='screenshot full page scrolling capture stitch selection playwright',
    entry_points={"console_scripts": ["scrollcapture.io=scrollcaptureio:main"]},
    zip_safe=False,
    scripts=["scrollcapture.py"],
    packages=find_packages(include=['scrollcaptureio', 'scrollcaptureio.*']),
    package_data={'scrollcaptureio.hosts.res': ['*.js']},
    include_package_data=True,
    install_requires=install_requires,
    extras_require={'test': tests_require},
    license="Apache License 2.0",
    python_requires=">= 3.10",
    classifiers=['Intended Audience :: Developers',
                 'Intended Audience :: End Users/Desktop',
                 'Topic :: Internet :: WWW/HTTP :: Browsers',
                 'Topic :: Multimedia :: Graphics :: Capture :: Screen Capture',
                 'Topic :: Utilities'
                 ],
)
