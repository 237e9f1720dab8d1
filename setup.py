#!/usr/bin/env python

from setuptools import setup, find_packages

with open('vnacal/__init__.py') as fid:
    for line in fid:
        if line.startswith('__version__'):
            VERSION = line.strip().split()[-1][1:-1]
            break

LONG_DESCRIPTION = """
	scikit-vnacal solves vector network analyzer calibrations (T8, U8, TE10, UE10, T16, U16, UE14 and E12 error models) from measured standards, and applies them to correct DUT measurements.
"""
setup(name='scikit-vnacal',
	version=VERSION,
	license='new BSD',
	description='Vector Network Analyzer Calibration',
	long_description=LONG_DESCRIPTION,
	packages=find_packages(include=['vnacal', 'vnacal.*']),
	install_requires = [
		'numpy',
		'scipy',
		],
	extras_require = {
		'test': ['pytest'],
		},
	package_dir={'vnacal':'vnacal'},
	include_package_data = True,
	)
