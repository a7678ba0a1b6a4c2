"""
Packaging for obd-serial-connection.

Install for development with `pip install -e .[test]` and run the tests with `pytest`.
"""

from setuptools import setup

setup(
    name='obd-serial-connection',
    version='0.1.0',
    description='Shares a single serial connection to a vehicle ECU between any number of callers.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['obdserial', 'obdserial.config', 'obdserial.support', 'obdserial.transport'],
    python_requires='>=3.8',
    install_requires=[
        'pyserial>=3.4',
        'configobj>=5.0.6',
    ],
    extras_require={
        'test': [
            'pytest',
            'PyHamcrest',
            'timeout-decorator',
        ],
    },
    entry_points={
        'console_scripts': [
            'obd-monitor = obdserial.monitor:monitor',
        ],
    },
    zip_safe=False,
)
