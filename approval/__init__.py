"""Transaction approval engine: policy matching, chain normalization and the
custody submit/poll protocol."""
