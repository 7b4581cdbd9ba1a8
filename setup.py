#!/usr/bin/env python3
import sys
from setuptools import setup


if sys.version_info[:2] < (3, 7):
    sys.exit('Support Python 3.7 or above only.')

setup(
    name='RandomPort',
    version='0.0.1',
    description='Hand out free local TCP ports, one or a contiguous run.',
    author='sorz',
    author_email='orz@sorz.org',
    packages=['randomport'],
    python_requires='>=3.7',
    extras_require={
        'test': ['pytest'],
    },
)
