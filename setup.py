#!/usr/bin/env python

import setuptools

install_requires = [
    'numpy>=1.20.0',
    'scipy>=1.7.0',
    'nibabel>=3.2.0',
    'joblib>=1.0.0',
    'tqdm>=4.62.0',
    'psutil>=5.8.0'
]

setuptools.setup(
    name='QUITpy',
    version='0.3.0',
    description='Voxelwise quantitative MRI fitting (DESPOT1 T1 mapping) and signal simulation',
    license='MPL-2.0',
    packages=setuptools.find_packages(include=("quitpy", "quitpy.*"), exclude=("quitpy.tests*",)),
    install_requires=install_requires,
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.10',
    package_data={
        'quitpy': [
            'configs/*.ini',
        ]
    },
    entry_points={
        'console_scripts': ['QUIT=quitpy.master_cli:main'],
    },
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Scientific/Engineering :: Medical Science Apps.',
    ],
)
