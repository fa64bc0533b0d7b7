"""
Multi-layer perceptron over sentence embeddings.

Architecture:
    Input(384) -> Dense(128) -> ReLU -> Dropout(0.2)
               -> Dense(64)  -> ReLU -> Dropout(0.2)
               -> Dense(C)   -> Softmax

The network returns logits; softmax is applied in ``predict_proba`` and is
folded into ``nn.CrossEntropyLoss`` during training, which with one-hot
targets is categorical cross-entropy.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim
from torch.utils.data import DataLoader, TensorDataset

from ..utils.fileio import atomic_path

logger = logging.getLogger(__name__)

Parameters = Dict[str, torch.Tensor]


class ClassifierMLP(nn.Module):
    """Dense ReLU layers with dropout, one output unit per category."""

    def __init__(
        self,
        input_dim: int = 384,
        num_classes: int = 2,
        hidden_dims: Sequence[int] = (128, 64),
        dropout_rate: float = 0.2
    ):
        super().__init__()

        layers = []
        prev_dim = input_dim
        for hidden_dim in hidden_dims:
            layers.extend([
                nn.Linear(prev_dim, hidden_dim),
                nn.ReLU(),
                nn.Dropout(dropout_rate)
            ])
            prev_dim = hidden_dim

        layers.append(nn.Linear(prev_dim, num_classes))
        self.network = nn.Sequential(*layers)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.network(x)


class ClassifierNetwork:
    """
    Trainable wrapper around ClassifierMLP.

    Exposes one-epoch fitting, evaluation, inference, parameter snapshots
    and (de)serialization; the epoch loop itself is driven by the caller.

    Usage:
        net = ClassifierNetwork(input_dim=384, num_classes=3)
        loss, acc = net.fit_epoch(X_train, Y_train)
        val_loss, val_acc = net.evaluate(X_val, Y_val)
        probs = net.predict_proba(X)
    """

    def __init__(
        self,
        input_dim: int = 384,
        num_classes: int = 2,
        hidden_dims: Sequence[int] = (128, 64),
        dropout_rate: float = 0.2,
        learning_rate: float = 0.001,
        batch_size: int = 32,
        seed: int = 42,
        device: Optional[str] = None
    ):
        self.input_dim = input_dim
        self.num_classes = num_classes
        self.hidden_dims = tuple(hidden_dims)
        self.dropout_rate = dropout_rate
        self.learning_rate = learning_rate
        self.batch_size = batch_size
        self.seed = seed
        self.device = torch.device(device or ('cuda' if torch.cuda.is_available() else 'cpu'))

        torch.manual_seed(seed)
        self._generator = torch.Generator().manual_seed(seed)

        self.model = ClassifierMLP(
            input_dim=input_dim,
            num_classes=num_classes,
            hidden_dims=self.hidden_dims,
            dropout_rate=dropout_rate
        ).to(self.device)
        self.optimizer = optim.Adam(self.model.parameters(), lr=learning_rate)
        self.criterion = nn.CrossEntropyLoss()

        logger.debug(
            f"Created classifier {input_dim} -> {self.hidden_dims} -> {num_classes} "
            f"({sum(p.numel() for p in self.model.parameters())} parameters, device={self.device})"
        )

    def _tensor(self, values: np.ndarray) -> torch.Tensor:
        return torch.as_tensor(np.asarray(values, dtype=np.float32), device=self.device)

    @staticmethod
    def _accuracy(logits: torch.Tensor, targets: torch.Tensor) -> int:
        return int((logits.argmax(dim=1) == targets.argmax(dim=1)).sum().item())

    def fit_epoch(self, X: np.ndarray, Y: np.ndarray) -> Tuple[float, float]:
        """
        Run one pass of shuffled mini-batch Adam updates.

        Args:
            X: Embeddings of shape (n, input_dim)
            Y: One-hot targets of shape (n, num_classes)

        Returns:
            Tuple of (average loss, accuracy) over the epoch
        """
        loader = DataLoader(
            TensorDataset(self._tensor(X), self._tensor(Y)),
            batch_size=self.batch_size,
            shuffle=True,
            generator=self._generator
        )

        self.model.train()
        total_loss = 0.0
        correct = 0
        total = 0

        for batch_X, batch_Y in loader:
            self.optimizer.zero_grad()
            logits = self.model(batch_X)
            loss = self.criterion(logits, batch_Y)
            loss.backward()
            self.optimizer.step()

            total_loss += loss.item() * batch_X.size(0)
            correct += self._accuracy(logits, batch_Y)
            total += batch_X.size(0)

        return total_loss / total, correct / total

    def evaluate(self, X: np.ndarray, Y: np.ndarray) -> Tuple[float, float]:
        """Loss and accuracy without dropout or parameter updates."""
        self.model.eval()
        with torch.no_grad():
            targets = self._tensor(Y)
            logits = self.model(self._tensor(X))
            loss = self.criterion(logits, targets).item()
        return loss, self._accuracy(logits, targets) / len(targets)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Softmax scores of shape (n, num_classes)."""
        X = np.asarray(X, dtype=np.float32)
        if X.ndim == 1:
            X = X.reshape(1, -1)

        self.model.eval()
        with torch.no_grad():
            probabilities = torch.softmax(self.model(self._tensor(X)), dim=1)
        return probabilities.cpu().numpy()

    def get_parameters(self) -> Parameters:
        """Independent copy of the current parameters."""
        return {key: value.detach().cpu().clone() for key, value in self.model.state_dict().items()}

    def set_parameters(self, parameters: Parameters) -> None:
        self.model.load_state_dict({key: value.to(self.device) for key, value in parameters.items()})

    def save(self, path: Union[str, Path], extra: Optional[Dict[str, Any]] = None) -> None:
        """Atomically write parameters, architecture and ``extra`` to ``path``."""
        save_dict = {
            'model_state_dict': self.get_parameters(),
            'input_dim': self.input_dim,
            'num_classes': self.num_classes,
            'hidden_dims': list(self.hidden_dims),
            'dropout_rate': self.dropout_rate,
            'learning_rate': self.learning_rate,
            'batch_size': self.batch_size,
            **(extra or {})
        }
        with atomic_path(path) as tmp:
            torch.save(save_dict, tmp)
        logger.debug(f"Model saved to {path}")

    @classmethod
    def load(cls, path: Union[str, Path], device: Optional[str] = None) -> Tuple['ClassifierNetwork', Dict[str, Any]]:
        """
        Rebuild a network from ``path``.

        Returns:
            Tuple of (network, full saved dictionary)
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model file not found: {path}")

        save_dict = torch.load(path, map_location='cpu', weights_only=True)
        network = cls(
            input_dim=save_dict['input_dim'],
            num_classes=save_dict['num_classes'],
            hidden_dims=save_dict['hidden_dims'],
            dropout_rate=save_dict['dropout_rate'],
            learning_rate=save_dict.get('learning_rate', 0.001),
            batch_size=save_dict.get('batch_size', 32),
            device=device
        )
        network.set_parameters(save_dict['model_state_dict'])
        network.model.eval()

        logger.debug(f"Model loaded from {path}")
        return network, save_dict
