from setuptools import setup, find_packages


setup(
    name='torch_jacobi',
    version='0.1.0',
    packages=find_packages(include=['torch_jacobi', 'torch_jacobi.*']),
    install_requires=[
        'torch>=2.0.0',
        'numpy'
    ],
    extras_require={
        'test':['pytest','numpy','scipy'],
        'docs':['sphinx','furo']
    },
    entry_points={
        'console_scripts': ['torch-jacobi=torch_jacobi.__main__:main']
    }
)
