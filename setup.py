from setuptools import setup


setup(
    name='debuglink-transport-py',
    version='0.1.0',
    description='Discovers a companion debugging listener on the local network and streams framed packages to it.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['debuglink', 'debuglink.config', 'debuglink.connector', 'debuglink.support'],
    package_data={'debuglink.config': ['*.cfg']},
    python_requires='>=3.8',
    install_requires=[
        'zeroconf>=0.38',
        'configobj>=5.0.6',
    ],
    extras_require={
        'test': [
            'pytest',
            'PyHamcrest>=2.0',
            'timeout-decorator',
        ],
    },
    zip_safe=False,
)
