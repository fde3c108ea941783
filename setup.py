# MIT License
# 
# Copyright (c) 2019-2024 The PyQMC Developers
# 
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# 
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.

'''
Variational and diffusion Monte Carlo sampling with population control
'''
from setuptools import setup, find_namespace_packages
import codecs
import os.path


def read(rel_path):
    here = os.path.abspath(os.path.dirname(__file__))
    with codecs.open(os.path.join(here, rel_path), 'r') as fp:
        return fp.read()

def get_version(rel_path):
    for line in read(rel_path).splitlines():
        if line.startswith('__version__'):
            delim = '"' if '"' in line else "'"
            return line.split(delim)[1]
    else:
        raise RuntimeError("Unable to find version string.")


def setup_rwqmc():
    setup(
        name='rwqmc',
        packages=find_namespace_packages(include=['rwqmc', 'rwqmc.*']),
        version=get_version("rwqmc/__init__.py"),
        license='MIT License',
        description='Random-walk quantum Monte Carlo: VMC sampling and DMC branching with population control',
        long_description=read('README.md'),
        long_description_content_type='text/markdown',
        python_requires='>=3.8',
        install_requires=[
            "numpy",
            "scipy",
            "pandas",
            "h5py"
        ],
        extras_require={
            "test": ["pytest", "pyscf"],
        },
        classifiers=[
            'Development Status :: 4 - Beta',
            'Intended Audience :: Science/Research',
            'Programming Language :: Python',
            'License :: OSI Approved :: MIT License',
        ],
    )


if __name__ == '__main__':
    setup_rwqmc()
