from setuptools import setup

setup(
    name='vfsconform',
    version='0.1.0',
    description='Conformance verification engine for virtual file systems',
    python_requires='>=3.10',
    packages=['vfsconform', '_vfsconform_scripts'],
    package_dir={
        '_vfsconform_scripts': 'scripts',
    },
    package_data={
        'vfsconform': ['testdata/*.golden'],
    },
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'vfsconform_baseline=_vfsconform_scripts._baseline:main',
        ],
    },
)
