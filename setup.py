from setuptools import setup, find_packages

setup(name="obench", version=0.1, description="Gaussian beam optical bench tracer", author='Dane Austin',
      author_email='dane_austin@fastmail.com.au',
      packages=find_packages(exclude=['test', 'test.*']),
      install_requires=['numpy', 'scipy', 'pyyaml'], extras_require={'test': ['pytest']},
      entry_points={'console_scripts': ['obench-trace=obench.cli:trace_scene']}, python_requires='>=3.7')
