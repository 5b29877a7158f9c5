from setuptools import setup
from pathlib import Path

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(name='machbind',
      version='1.0.0',
      description='Static 64 bit mach-o structure and symbol pointer binding analysis tool.',
      long_description=long_description,
      long_description_content_type='text/markdown',
      python_requires='>=3.8',
      install_requires=['Pygments'],
      extras_require={'test': ['pytest']},
      packages=['libmachbind', 'machbind_macho', 'machbind'],
      package_dir={
            'libmachbind': 'src/libmachbind',
            'machbind_macho': 'src/machbind_macho',
            'machbind': 'src/machbind'
      },
      classifiers=[
            'Programming Language :: Python :: 3',
            'License :: OSI Approved :: MIT License',
            'Operating System :: OS Independent'
      ],
      entry_points={
            'console_scripts': ['machbind=machbind.machbind_script:main']
      }
      )
