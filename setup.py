from setuptools import setup, find_packages

setup(
    name='systemaddons-versions',
    version='0.1.0',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.10',
    install_requires=[
        'requests',
        'PyYAML',
        'urllib3',
        'platformdirs',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest>=7,<9',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'systemaddons-versions=systemaddons.cli:main',
        ],
    },
)
