import logging
import logging.handlers
import os
import queue
import unittest
import unittest.mock

from demmosaic import slurm_utils

# block of 1024 with a margin of 203, 4 threads, a 1000 x 1000 tile
_MOSAIC_ARGS = (1024, 203, 4, (1000, 1000))


class SLURMUtilsTest(unittest.TestCase):
    def test_estimate_mosaic_memory_mb(self):
        """demmosaic.slurm_utils: estimate grows with threads and tile."""
        base_mb = slurm_utils.estimate_mosaic_memory_mb(*_MOSAIC_ARGS)
        self.assertGreater(base_mb, 0)
        self.assertGreater(
            slurm_utils.estimate_mosaic_memory_mb(1024, 203, 8, (1000, 1000)),
            base_mb)
        self.assertGreater(
            slurm_utils.estimate_mosaic_memory_mb(1024, 203, 4, (2000, 1000)),
            base_mb)

    @unittest.mock.patch.dict(os.environ, {"SLURM_MEM_PER_NODE": "128"})
    def test_warning_memory_exceeded_on_slurm(self):
        """demmosaic.slurm_utils: warn when memory exceeds slurm's."""
        for gdal_cachesize in [1234567890,  # big number of bytes
                               256]:        # megabytes, exceeds slurm
            with unittest.mock.patch('osgeo.gdal.GetCacheMax',
                                     lambda: gdal_cachesize):
                with unittest.mock.patch('warnings.warn') as warn_mock:
                    slurm_utils.log_warning_if_mosaic_will_exhaust_slurm_memory(
                        *_MOSAIC_ARGS)

                warn_mock.assert_called_once()
                caught_message = warn_mock.call_args[0][0]
                self.assertIn("exceed the memory SLURM has", caught_message)
                self.assertIn(f"GDAL_CACHEMAX={gdal_cachesize}",
                              caught_message)
                self.assertIn("SLURM_MEM_PER_NODE=128", caught_message)

    @unittest.mock.patch.dict(os.environ, {"SLURM_MEM_PER_NODE": "128"})
    def test_logging_memory_exceeded_on_slurm(self):
        """demmosaic.slurm_utils: log when memory exceeds slurm's."""
        logging_queue = queue.Queue()
        queuehandler = logging.handlers.QueueHandler(logging_queue)
        slurm_logger = logging.getLogger('demmosaic.slurm_utils')
        slurm_logger.addHandler(queuehandler)

        with unittest.mock.patch('osgeo.gdal.GetCacheMax', lambda: 256):
            try:
                logging.captureWarnings(True)  # needed for this test
                slurm_utils.log_warning_if_mosaic_will_exhaust_slurm_memory(
                    *_MOSAIC_ARGS)
            finally:
                # Always reset captureWarnings in case of failure so other
                # tests don't misbehave.
                logging.captureWarnings(False)
                slurm_logger.removeHandler(queuehandler)

        caught_warnings = []
        while True:
            try:
                caught_warnings.append(logging_queue.get_nowait())
            except queue.Empty:
                break

        self.assertEqual(len(caught_warnings), 1)
        caught_message = caught_warnings[0].msg
        self.assertIn("exceed the memory SLURM has", caught_message)
        self.assertIn("SLURM_MEM_PER_NODE=128", caught_message)

    @unittest.mock.patch.dict(os.environ, {"SLURM_MEM_PER_NODE": "1000000"})
    def test_enough_memory_on_slurm(self):
        """demmosaic.slurm_utils: no warning when memory suffices."""
        with unittest.mock.patch('osgeo.gdal.GetCacheMax', lambda: 64):
            with unittest.mock.patch('warnings.warn') as warn_mock:
                slurm_utils.log_warning_if_mosaic_will_exhaust_slurm_memory(
                    *_MOSAIC_ARGS)

            warn_mock.assert_not_called()

    @unittest.mock.patch.dict(os.environ, {}, clear=True)  # clear all env vars
    def test_not_on_slurm_no_warnings(self):
        """demmosaic.slurm_utils: verify no warnings when not on slurm."""
        with unittest.mock.patch('osgeo.gdal.GetCacheMax',
                                 lambda: 123456789):  # big memory value
            with unittest.mock.patch('warnings.warn') as warn_mock:
                slurm_utils.log_warning_if_mosaic_will_exhaust_slurm_memory(
                    *_MOSAIC_ARGS)

            warn_mock.assert_not_called()
