from setuptools import setup, find_packages

setup(
    name='buckle',
    version='0.1.0',
    description='A lightweight launcher for buck2 and other release-distributed tools',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.10',
    install_requires=[
        'requests',
        'PyYAML',
        'platformdirs',
        'rich',
        'zstandard',
    ],
    extras_require={
        'test': [
            'pytest<9.1',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'buckle=buckle.cli:main',
        ],
    },
)
