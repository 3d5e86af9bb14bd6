from setuptools import setup

exec(compile(open('ipweights/version.py').read(),
             'ipweights/version.py', 'exec'))


setup(name='ipweights',
      version=__version__,
      description='Inverse probability of treatment and censoring weighted estimators for cohort studies',
      keywords='IPTW IPCW propensity score',
      packages=['ipweights'],
      include_package_data=True,
      python_requires='>=3.8',
      install_requires=['numpy',
                        'pandas',
                        'scipy',
                        'patsy',
                        'statsmodels>=0.14',
                        'lifelines'],
      extras_require={'test': ['pytest']}
      )
