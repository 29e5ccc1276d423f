from setuptools import setup, find_packages

setup(
    name='adaptode',  # adaptive ODE/DAE integrators on torch
    version='0.1.0',
    description='Radau IIA, Dormand-Prince and Euler integrators with error control',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.10',
    install_requires=[
        'torch',
        'numpy',
        'scipy',
        'matplotlib',
    ],
    extras_require={
        'test': ['pytest'],
    },
)
