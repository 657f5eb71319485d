import mock
import pytest

from xenoseq import utils as xenoseq_utils
from xenoseq.distributed import transaction
from xenoseq.distributed.transaction import tx_tmpdir
from xenoseq.distributed.transaction import file_transaction
from xenoseq.distributed.transaction import _get_base_tmpdir
from xenoseq.distributed.transaction import _flatten_plus_safe
from xenoseq.distributed.transaction import _move_file_with_sizecheck


CWD = 'TEST_CWD'
CONFIG = {'a': 1}
TMPDIR = 'TEST_TMPDIR'


class DummyTxTmpdir(object):
    """Stands in for the tx_tmpdir context manager, yielding a fixed path."""
    value = 'foo'

    def __init__(self, *args, **kwargs):
        pass

    def __enter__(self):
        return self.value

    def __exit__(self, *args):
        return False


@pytest.fixture
def mock_io(mocker):
    mocker.patch('xenoseq.distributed.transaction.open')
    mocker.patch('xenoseq.distributed.transaction.os.path.isdir')
    mocker.patch('xenoseq.distributed.transaction.os.path.isfile')
    mocker.patch('xenoseq.distributed.transaction.os.path.exists')
    mocker.patch('xenoseq.distributed.transaction.shutil')
    mocker.patch(
        'xenoseq.distributed.transaction.tempfile.mkdtemp',
        return_value=TMPDIR)
    mocker.patch('xenoseq.distributed.transaction.utils')
    transaction.utils.flatten.side_effect = xenoseq_utils.flatten
    mocker.patch(
        'xenoseq.distributed.transaction.os.getcwd',
        return_value=CWD
    )
    return None


class TestTxTmpdir(object):

    def test_gets_base_tmpdir_name_from_config_or_cwd(self, mock_io, mocker):
        mocker.patch('xenoseq.distributed.transaction._get_base_tmpdir')
        config = mock.Mock()
        with tx_tmpdir(config):
            pass
        transaction._get_base_tmpdir.assert_called_once_with(config, CWD)
        base_tmpdir = transaction._get_base_tmpdir.return_value
        transaction.utils.get_abspath.assert_called_once_with(base_tmpdir)

    def test_makes_base_tmp_dir(self, mock_io):
        with tx_tmpdir(None):
            pass
        transaction.utils.safe_makedir.assert_called_once_with(
            transaction.utils.get_abspath.return_value)

    def test_yields_tmp_dir(self, mock_io):
        expected = transaction.tempfile.mkdtemp.return_value
        with tx_tmpdir() as tmp_dir:
            assert tmp_dir == expected

    def test_rmtree_called_if_remove_is_true(self, mock_io):
        transaction.tempfile.mkdtemp.return_value = 'foo'
        with tx_tmpdir(remove=True):
            pass
        transaction.utils.remove_safe.assert_called_once_with('foo')


class TestGetConfigTmpdir(object):

    def test_get_config_tmpdir__from_resources(self):
        config = {'resources': {'tmp': {'dir': 'TEST_TMP_DIR'}}}
        assert _get_base_tmpdir(config, CWD) == 'TEST_TMP_DIR'

    def test_get_config_tmpdir__from_run_config(self, run_config):
        expected = '%s/xenoseqtx' % run_config.work_dir
        assert _get_base_tmpdir(run_config, CWD) == expected

    def test_get_config_tmpdir__run_config_tmp_dir(self, make_config):
        config = make_config(tmp_dir='/scratch/tx')
        assert _get_base_tmpdir(config, CWD) == '/scratch/tx'

    def test_get_config_tmpdir__no_data(self):
        assert _get_base_tmpdir(None, CWD) == '%s/xenoseqtx' % CWD


class TestFlattenPlusSafe(object):

    @pytest.fixture(autouse=True)
    def mock_tx_tmpdir(self, mocker):
        return mocker.patch(
            'xenoseq.distributed.transaction.tx_tmpdir',
            side_effect=DummyTxTmpdir
        )

    @pytest.mark.parametrize(('args', 'exp_tx_args'), [
        (('/path/to/somefile',), (None,)),
        ((CONFIG, '/path/to/somefile'), (CONFIG,)),
        ((CONFIG, ['/path/to/somefile']), (CONFIG,)),
        ((CONFIG, '/path/to/somefile', '/otherpath/to/file'), (CONFIG,))
    ])
    def test_calls_tx_tmpdir(self, args, exp_tx_args):
        with _flatten_plus_safe(args):
            pass
        transaction.tx_tmpdir.assert_called_once_with(*exp_tx_args)

    @pytest.mark.parametrize(('args', 'expected_tx'), [
        (('/path/to/somefile',), ['foo/somefile']),
        ((CONFIG, ['/path/to/somefile', None]), ['foo/somefile']),
        ((CONFIG, '/path/to/somefile', '/otherpath/to/otherfile'),
         ['foo/somefile', 'foo/otherfile']),
    ])
    def test_creates_path_to_tx_file_in_tmp_dir(self, args, expected_tx):
        with _flatten_plus_safe(args) as (result_tx, _):
            assert result_tx == expected_tx

    def test_accepts_run_config(self, run_config):
        with _flatten_plus_safe((run_config, '/path/to/somefile')) as (_, result_safe):
            assert result_safe == ['/path/to/somefile']
        transaction.tx_tmpdir.assert_called_once_with(run_config)


class TestMoveWithSizeCheck(object):
    def test_moves_files(self, mock_io):
        _move_file_with_sizecheck('foo', 'bar')
        transaction.shutil.move.assert_called_once_with('foo', 'bar')

    def test_fails_if_sizes_arent_equal(self, mock_io):
        transaction.utils.get_size.side_effect = lambda x: x
        with pytest.raises(AssertionError):
            _move_file_with_sizecheck('foo', 'bar')
        assert not transaction.utils.remove_safe.called

    def test_creates_flag_file(self, mock_io):
        expected_flag_file = 'bar.xenoseqtmp'
        _move_file_with_sizecheck('foo', 'bar')
        transaction.open.assert_called_once_with(expected_flag_file, 'wb')
        transaction.utils.remove_safe.assert_called_once_with(
            expected_flag_file)


class TestFileTransaction(object):

    def test_yields_path_to_tmpfile(self, mock_io):
        with file_transaction(CONFIG, '/some/path') as tmp_path:
            assert tmp_path == '%s/path' % TMPDIR

    def test_yields_tuple_of_paths_to_tmpfiles(self, mock_io):
        original = ('/some/path', '/some/otherpath')
        expected_tmp = ('%s/path' % TMPDIR, '%s/otherpath' % TMPDIR)
        with file_transaction(CONFIG, *original) as tmp_path:
            assert tmp_path == expected_tmp

    def test_moves_tmp_file_to_original_locations(self, mock_io):
        original = '/some/path'
        transaction.os.path.exists.return_value = True
        with file_transaction(CONFIG, original) as tmp_path:
            pass
        transaction.shutil.move.assert_called_once_with(tmp_path, original)

    def test_removes_tmpdir(self, mock_io):
        with file_transaction(CONFIG, '/some/path'):
            pass
        transaction.utils.remove_safe.assert_called_with(TMPDIR)

    def test_doesnt_try_to_move_tmp_file_if_it_doesnt_exist(self, mock_io):
        transaction.os.path.exists.return_value = False
        with file_transaction(CONFIG, '/some/path'):
            pass
        assert not transaction.shutil.move.called


def test_moves_bam_index_with_bam(tmpdir, run_config):
    out_file = str(tmpdir.join("out", "S1.bam"))
    with file_transaction(run_config, out_file) as tx_out_file:
        for fname in [tx_out_file, tx_out_file + ".bai"]:
            with open(fname, "w") as out_handle:
                out_handle.write("bam")
    assert tmpdir.join("out", "S1.bam").check()
    assert tmpdir.join("out", "S1.bam.bai").check()
    assert not tmpdir.join("out", "S1.bam.xenoseqtmp").check()
