from setuptools import find_packages, setup

setup(
    name='mint-runner',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.8',

    entry_points={
        'console_scripts': [
            'mint-runner=mint_runner.__main__:main',
        ],
    },
    install_requires=[
        'web3>=7',
        'eth-account>=0.13',
        'eth-utils',
        'eth-typing',
        'requests',
        'pyyaml',
        'structlog>=21.5',
        'click',
        'gevent',
        'typing_extensions',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
)
