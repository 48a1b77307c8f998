#!/usr/bin/env python
"""Tests for the Cell Proximity command-line pipeline"""
import os
import sys
import tempfile
import pytest
from pathlib import Path

import numpy as np
import pandas as pd
import tifffile

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def write_dataset(directory, names=('field1', 'field2')):
    """Write cell seg tables and segmentation maps for a few small fields

    Every field has a CD8 cell touching a Tumor cell and a distant CD4 cell.
    """
    shape = (12, 36)
    membrane = np.zeros(shape, dtype=np.uint8)
    for left, right in ((1, 9), (9, 18), (25, 33)):
        membrane[1, left:right + 1] = 1
        membrane[10, left:right + 1] = 1
        membrane[1:11, left] = 1
        membrane[1:11, right] = 1

    nuclei = np.zeros(shape, dtype=np.uint16)
    nuclei[4:7, 4:7] = 1
    nuclei[4:7, 12:15] = 2
    nuclei[4:7, 28:31] = 3

    cells = pd.DataFrame({
        'Cell ID': [1, 2, 3],
        'Cell X Position': [5, 13, 29],
        'Cell Y Position': [5, 5, 5],
        'Phenotype': ['CD8', 'Tumor', 'CD4'],
        'Tissue Category': ['tumor', 'tumor', 'stroma'],
    })

    for name in names:
        cells.to_csv(os.path.join(directory, f'{name}_cell_seg_data.txt'), sep='\t', index=False)
        tifffile.imwrite(os.path.join(directory, f'{name}_nuc_seg_map.tif'), nuclei)
        tifffile.imwrite(os.path.join(directory, f'{name}_memb_seg_map.tif'), membrane)


def make_config(tmpdir):
    from cli.config import get_default_config

    config = get_default_config("test")
    config['input_dir'] = os.path.join(tmpdir, 'input')
    config['output_dir'] = os.path.join(tmpdir, 'output')
    config['units']['pixels_per_micron'] = 1.0
    config['touching']['pairs'] = [['CD8', 'Tumor']]
    os.makedirs(config['input_dir'])
    write_dataset(config['input_dir'])
    return config


class TestConfig:
    """Test configuration loading and validation"""

    def test_get_default_config(self):
        """Test generating default configuration"""
        from cli.config import get_default_config

        config = get_default_config("test_dataset")
        assert config['dataset_name'] == "test_dataset"
        assert 'units' in config
        assert 'phenotypes' in config
        assert 'nearest' in config
        assert 'within' in config
        assert 'touching' in config

    def test_save_and_load_config(self):
        """Test saving configuration to file and reading it back"""
        from cli.config import get_default_config, load_config, save_config

        with tempfile.TemporaryDirectory() as tmpdir:
            config = get_default_config("test")
            output_path = os.path.join(tmpdir, "test_config.yaml")
            save_config(config, output_path)
            assert os.path.exists(output_path)

            loaded = load_config(output_path)
            assert loaded == config

    def test_load_missing_config(self):
        from cli.config import load_config

        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/config.yaml")

    def test_missing_required_field(self):
        """Config files must name the dataset and its directories"""
        from cli.config import load_config, save_config

        with tempfile.TemporaryDirectory() as tmpdir:
            output_path = os.path.join(tmpdir, "bad.yaml")
            save_config({'dataset_name': 'x'}, output_path)
            with pytest.raises(ValueError):
                load_config(output_path)

    def test_validate_config(self):
        """Phenotypes used in pairs must have rules"""
        from cli.config import get_default_config, validate_config
        from proximity.exceptions import InvalidConfigurationError

        config = get_default_config("test")
        validate_config(config)

        config['touching']['pairs'].append(['CD8', 'FoxP3'])
        with pytest.raises(InvalidConfigurationError):
            validate_config(config)

        # Disabled sections are not checked
        config['touching']['enabled'] = False
        validate_config(config)

    def test_rules_and_units(self):
        from cli.config import get_default_config, pixels_per_micron, rules_from_config
        from proximity.phenotypes import LabelRule

        config = get_default_config("test")
        rules = rules_from_config(config)
        assert rules['Lymphocyte'] == LabelRule(('CD4', 'CD8'))
        assert pixels_per_micron(config) == 2.0

        assert rules_from_config({}) is None
        assert pixels_per_micron({}) is None


class TestState:
    """Test batch state tracking"""

    def test_step_lifecycle(self):
        from cli.state import get_state

        with tempfile.TemporaryDirectory() as tmpdir:
            state = get_state(tmpdir)
            state.start_step('within', total_fields=2)
            state.mark_fields_processed('within', ['field1'])
            assert state.is_field_processed('within', 'field1')
            assert not state.is_field_processed('within', 'field2')

            state.complete_step('within')
            assert state.is_step_completed('within')
            assert state.get_resume_steps(['nearest', 'within', 'touches']) == ['nearest', 'touches']

            # State survives a reload
            reloaded = get_state(tmpdir)
            assert reloaded.is_step_completed('within')
            assert 'within: COMPLETED (1 fields)' in reloaded.get_progress_summary()

            reloaded.fail_step('touches', 'boom')
            assert 'touches: FAILED - boom' in reloaded.get_progress_summary()

            reloaded.reset()
            assert not reloaded.is_step_completed('within')

    def test_corrupt_state_file(self):
        from cli.state import STATE_FILE_NAME, get_state

        with tempfile.TemporaryDirectory() as tmpdir:
            with open(os.path.join(tmpdir, STATE_FILE_NAME), 'w') as f:
                f.write('{not json')
            state = get_state(tmpdir)
            assert state.get_resume_steps(['nearest']) == ['nearest']


class TestCommands:
    """Test the per-analysis batch commands"""

    def test_count_within(self):
        from cli.commands.within import run_count_within

        with tempfile.TemporaryDirectory() as tmpdir:
            write_dataset(tmpdir)
            output_dir = os.path.join(tmpdir, 'out')
            result = run_count_within(
                tmpdir, output_dir,
                pairs=[('CD8', 'Tumor'), ('Tumor', ['CD4', 'CD8'])],
                radii=[5, 10]
            )

            assert os.path.exists(os.path.join(output_dir, 'count_within.csv'))
            assert len(result) == 8
            assert set(result['source']) == {'field1', 'field2'}
            assert list(result['to'].iloc[:4]) == ['Tumor', 'Tumor', 'CD4/CD8', 'CD4/CD8']

            # CD8 at x=5 and Tumor at x=13 are 8 apart
            cd8_tumor = result[(result['from'] == 'CD8') & (result['source'] == 'field1')]
            assert list(cd8_tumor['within_count']) == [0, 1]

    def test_count_within_unknown_phenotype(self):
        from cli.commands.within import run_count_within
        from proximity.exceptions import InvalidConfigurationError

        with tempfile.TemporaryDirectory() as tmpdir:
            write_dataset(tmpdir)
            with pytest.raises(InvalidConfigurationError):
                run_count_within(tmpdir, tmpdir, pairs=[('CD8', 'Tumor')], radii=[10],
                                 phenotype_rules={'CD8': 'CD8'})

    def test_nearest(self):
        from cli.commands.nearest import run_nearest_distances

        with tempfile.TemporaryDirectory() as tmpdir:
            write_dataset(tmpdir, names=('field1',))
            output_dir = os.path.join(tmpdir, 'out')
            distances, mutual = run_nearest_distances(
                tmpdir, output_dir, mutual_pairs=[('CD8', 'Tumor')]
            )

            assert 'Distance to Tumor' in distances.columns
            assert distances.loc[0, 'Distance to Tumor'] == pytest.approx(8.0)
            assert len(mutual) == 1
            assert mutual.iloc[0]['cell_id'] == 1
            assert mutual.iloc[0]['nearest_id'] == 2
            assert os.path.exists(os.path.join(output_dir, 'mutual_nearest_pairs.csv'))

    def test_touches(self):
        from cli.commands.touches import run_touch_counts

        with tempfile.TemporaryDirectory() as tmpdir:
            write_dataset(tmpdir)
            output_dir = os.path.join(tmpdir, 'out')
            result = run_touch_counts(tmpdir, output_dir, pairs=[('CD8', 'Tumor'), ('CD8', 'CD4')])

            assert len(result) == 8
            field1 = result[result['source'] == 'field1']
            assert list(field1['count']) == [1, 1, 0, 0]

    def test_touches_images(self):
        """Images are written next to the composite"""
        from cli.commands.touches import run_touch_counts

        with tempfile.TemporaryDirectory() as tmpdir:
            write_dataset(tmpdir, names=('field1',))
            composite = np.zeros((12, 36, 3), dtype=np.uint8)
            tifffile.imwrite(os.path.join(tmpdir, 'field1_composite_image.tif'), composite,
                             photometric='rgb')
            image_dir = os.path.join(tmpdir, 'images')

            run_touch_counts(
                tmpdir, os.path.join(tmpdir, 'out'), pairs=[('CD8', 'Tumor')],
                colors={'CD8': 'yellow', 'Tumor': 'cyan'}, write_images=True,
                output_base=image_dir
            )
            assert os.path.exists(os.path.join(image_dir, 'field1_CD8_Tumor_touching.tif'))

    def test_touches_fail_fast(self):
        """Missing composites or colors stop the run before any output"""
        from cli.commands.touches import run_touch_counts
        from proximity.exceptions import InvalidConfigurationError, MissingAssetError

        with tempfile.TemporaryDirectory() as tmpdir:
            write_dataset(tmpdir)
            output_dir = os.path.join(tmpdir, 'out')

            with pytest.raises(MissingAssetError):
                run_touch_counts(tmpdir, output_dir, pairs=[('CD8', 'Tumor')],
                                 colors={'CD8': 'yellow', 'Tumor': 'cyan'}, write_images=True)
            with pytest.raises(InvalidConfigurationError):
                run_touch_counts(tmpdir, output_dir, pairs=[('CD8', 'Tumor')],
                                 colors={'CD8': 'yellow'}, write_images=True)
            assert not os.path.exists(os.path.join(output_dir, 'touch_counts.csv'))

    def test_touches_missing_maps_fail_fast(self):
        """A field without segmentation maps stops the run before any image is written"""
        from cli.commands.touches import run_touch_counts
        from proximity.exceptions import MissingAssetError

        with tempfile.TemporaryDirectory() as tmpdir:
            write_dataset(tmpdir)
            os.remove(os.path.join(tmpdir, 'field2_nuc_seg_map.tif'))
            os.remove(os.path.join(tmpdir, 'field2_memb_seg_map.tif'))
            composite = np.zeros((12, 36, 3), dtype=np.uint8)
            for name in ('field1', 'field2'):
                tifffile.imwrite(os.path.join(tmpdir, f'{name}_composite_image.tif'), composite,
                                 photometric='rgb')
            output_dir = os.path.join(tmpdir, 'out')
            image_dir = os.path.join(tmpdir, 'images')

            with pytest.raises(MissingAssetError):
                run_touch_counts(tmpdir, output_dir, pairs=[('CD8', 'Tumor')],
                                 colors={'CD8': 'yellow', 'Tumor': 'cyan'}, write_images=True,
                                 output_base=image_dir)
            assert not os.path.exists(image_dir)
            assert not os.path.exists(os.path.join(output_dir, 'touch_counts.csv'))

    def test_no_input_files(self):
        from cli.commands.within import run_count_within

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                run_count_within(tmpdir, tmpdir, pairs=[('CD8', 'Tumor')], radii=[10])


class TestPipeline:
    """Test the full pipeline"""

    def test_full_pipeline(self):
        from cli.commands.pipeline import run_full_pipeline
        from cli.state import get_state

        with tempfile.TemporaryDirectory() as tmpdir:
            config = make_config(tmpdir)
            run_full_pipeline(config)

            output_dir = config['output_dir']
            for name in ['nearest_distances.csv', 'mutual_nearest_pairs.csv',
                         'count_within.csv', 'touch_counts.csv']:
                assert os.path.exists(os.path.join(output_dir, name))

            state = get_state(output_dir)
            assert state.get_resume_steps(['nearest', 'within', 'touches']) == []

    def test_resume_keeps_results(self):
        """Resuming skips processed fields and keeps their rows"""
        from cli.commands.pipeline import run_full_pipeline
        from cli.state import get_state

        with tempfile.TemporaryDirectory() as tmpdir:
            config = make_config(tmpdir)
            run_full_pipeline(config, steps=['within'])

            counts_path = os.path.join(config['output_dir'], 'count_within.csv')
            first = pd.read_csv(counts_path)

            state = get_state(config['output_dir'])
            run_full_pipeline(config, steps=['within'], state=state, resume=True)
            second = pd.read_csv(counts_path)
            assert len(second) == len(first)

    def test_failed_step_recorded(self):
        from cli.commands.pipeline import run_full_pipeline
        from cli.state import get_state

        with tempfile.TemporaryDirectory() as tmpdir:
            config = make_config(tmpdir)
            config['within']['radii'] = []
            with pytest.raises(ValueError):
                run_full_pipeline(config, steps=['within'])

            state = get_state(config['output_dir'])
            assert state.state['steps']['within']['status'] == 'failed'

    def test_unknown_step(self):
        from cli.commands.pipeline import run_full_pipeline

        with tempfile.TemporaryDirectory() as tmpdir:
            config = make_config(tmpdir)
            with pytest.raises(ValueError):
                run_full_pipeline(config, steps=['segment'])


class TestCLI:
    """Test CLI functionality"""

    def test_create_parser(self):
        """Test argument parser creation"""
        from cli.main import create_parser

        parser = create_parser()
        assert parser is not None

        args = parser.parse_args(['within', '-i', 'in', '-o', 'out', '--pairs', 'Tumor:CD8',
                                  '--radii', '10', '25'])
        assert args.radii == [10.0, 25.0]
        assert args.n_jobs == 1

    def test_parse_pairs(self):
        """Test pair parsing from command line arguments"""
        from cli.main import parse_pairs

        assert parse_pairs(['CD8:Tumor', 'CD8:CD68']) == [('CD8', 'Tumor'), ('CD8', 'CD68')]
        assert parse_pairs(['Tumor:CD4+CD8'], allow_unions=True) == [('Tumor', ['CD4', 'CD8'])]

        with pytest.raises(ValueError):
            parse_pairs(['invalid_format'])
        with pytest.raises(ValueError):
            parse_pairs(['CD8:'])

    def test_parse_colors(self):
        from cli.main import parse_colors

        assert parse_colors(['CD8:yellow', 'Tumor:#00ffff']) == {'CD8': 'yellow', 'Tumor': '#00ffff'}
        with pytest.raises(ValueError):
            parse_colors(['yellow'])

    def test_init_command(self, monkeypatch):
        """Test init command creates config file"""
        from cli.main import main

        with tempfile.TemporaryDirectory() as tmpdir:
            output_path = os.path.join(tmpdir, "test_config.yaml")
            monkeypatch.setattr(sys, 'argv', ['cell-proximity', 'init', '--name', 'test_dataset',
                                              '--output', output_path])
            main()
            assert os.path.exists(output_path)


def test_imports():
    """Test that all modules can be imported"""
    from cli import main
    from cli import config
    from cli import state
    from cli.commands import nearest
    from cli.commands import within
    from cli.commands import touches
    from cli.commands import pipeline
    import proximity.analysis
    import proximity.morphology
    import proximity.reporting


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
