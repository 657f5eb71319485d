#!/usr/bin/env python

"""Setup file and install script for xenograft RNA-seq analysis scripts"""

import os
import subprocess

import setuptools

VERSION = '0.3.0'

# add xenoseq version number and git commit hash of the current revision to version.py
try:
    git_run = subprocess.run(['git', 'rev-parse', '--short', 'HEAD'], stdout=subprocess.PIPE,
                             stderr=subprocess.DEVNULL)
    git_run.check_returncode()
except (subprocess.SubprocessError, OSError):
    commit_hash = ''
else:
    commit_hash = git_run.stdout.strip().decode()

here = os.path.dirname(os.path.abspath(__file__))
with open(os.path.join(here, 'xenoseq', 'pipeline', 'version.py'), 'w') as version_file:
    version_file.writelines([f'__version__ = "{VERSION}"\n',
                             f'__git_revision__ = "{commit_hash}"\n'])

# external tools (samtools, hisat2, stringtie, gffread, mosdepth) are installed via Conda
setuptools.setup(name='xenoseq',
                 version=VERSION,
                 description='Extract, realign and quantify xenograft reads from RNA-seq alignments',
                 packages=setuptools.find_packages(exclude=['tests', 'tests.*']),
                 scripts=['scripts/xenoseq_pipeline.py'],
                 python_requires='>=3.7',
                 install_requires=['logbook',
                                   'toolz',
                                   'PyYAML',
                                   'pandas',
                                   'numpy',
                                   'pysam',
                                   'matplotlib'],
                 extras_require={'test': ['pytest', 'mock', 'pytest-mock']})
