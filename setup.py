"""setup.py module for demmosaic."""
from setuptools import setup

# Read in requirements.txt and populate the python readme with the non-comment
# contents.
_REQUIREMENTS = [
    x for x in open('requirements.txt').read().split('\n')
    if not x.startswith('#') and len(x) > 0]
_TEST_REQUIREMENTS = [
    x for x in open('requirements-dev.txt').read().split('\n')
    if not x.startswith('#') and len(x) > 0]
LONG_DESCRIPTION = open('README.rst').read().format(
    requirements='\n'.join(['    ' + r for r in _REQUIREMENTS]))
LONG_DESCRIPTION += '\n' + open('HISTORY.rst').read() + '\n'

setup(
    name='demmosaic',
    version='0.1.0',
    description="demmosaic: mosaic and blend DEMs into tiles",
    long_description=LONG_DESCRIPTION,
    long_description_content_type='text/x-rst',
    packages=['demmosaic'],
    package_dir={
        'demmosaic': 'src/demmosaic'
    },
    python_requires='>=3.8',
    include_package_data=True,
    install_requires=_REQUIREMENTS,
    extras_require={'test': _TEST_REQUIREMENTS},
    entry_points={
        'console_scripts': [
            'dem_mosaic = demmosaic.cli:main',
        ],
    },
    license='BSD',
    zip_safe=False,
)
