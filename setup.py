from setuptools import setup, find_packages

setup(name='cothunk',
      version='0.1.0',
      description='Chainable deferred values, and coroutines driven by the thunks they yield',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
          "Framework :: Trio",
      ],
      keywords='promise deferred thunk coroutine generator trio',
      license='MIT',
      python_requires='>=3.11',
      packages=find_packages(),
      install_requires=['trio', 'outcome'],
)
